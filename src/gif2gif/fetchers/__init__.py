from .url import UrlWeightFetcher

__all__ = ["UrlWeightFetcher"]
