from .chain_job import ChainJob, ChainStatus, derive_num_segments, parse_size

__all__ = [
    "ChainJob",
    "ChainStatus",
    "derive_num_segments",
    "parse_size",
]
