from chainlog.chain.cache import (
    ChainCache,
    default_chain_cache,
    new_chain_id,
    normalize_chain,
)

__all__ = ["ChainCache", "default_chain_cache", "new_chain_id", "normalize_chain"]
