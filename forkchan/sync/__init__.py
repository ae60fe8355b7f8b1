# forkchan/sync/__init__.py
from forkchan.sync.feed_cache import FeedCache
from forkchan.sync.mutation_tracker import MutationTracker, PendingMutation
from forkchan.sync.fetch_generations import FetchGenerations
from forkchan.sync.coordinator import PostState, PostStatus, SyncCoordinator

__all__ = [
    'FeedCache',
    'MutationTracker',
    'PendingMutation',
    'FetchGenerations',
    'PostState',
    'PostStatus',
    'SyncCoordinator',
]
