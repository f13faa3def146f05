from ._normalize import downsample, downsample_to_min, normalize

__all__ = ["downsample", "downsample_to_min", "normalize"]
