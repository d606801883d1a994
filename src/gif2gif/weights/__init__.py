from .codec import decode_weight_file, encode_weight_file, pack_weights

__all__ = ["decode_weight_file", "encode_weight_file", "pack_weights"]
