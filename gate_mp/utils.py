import torch

DEFAULT_DTYPE = torch.float64


def isscalar(v):
    """
    how is this not a builtin?
    """
    v = torch.as_tensor(v)
    return (
        v.shape == torch.Size([]) or
        v.shape == torch.Size([1]))


def as_float(v):
    """
    Python float from a float, 0-d or 1-element tensor.
    """
    if isinstance(v, torch.Tensor):
        if not isscalar(v):
            raise ValueError(f"expected a scalar, got shape {tuple(v.shape)}")
        return float(v.reshape(-1)[0])
    return float(v)


def as_tensor(v, dtype=None):
    """
    Float64 tensor copy of `v`, so callers may mutate the result safely.
    """
    if dtype is None:
        dtype = DEFAULT_DTYPE
    return torch.as_tensor(v, dtype=dtype).clone()
