from .api_client import ApiClient, ApiError
from .state_cache import StateCache

__all__ = ['ApiClient', 'ApiError', 'StateCache']
