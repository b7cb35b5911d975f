"""imgaudit: audit KVM image storage against the control-plane database."""

from importlib import metadata as _metadata

DISTRIBUTION = "imgaudit"

__all__ = ["DISTRIBUTION", "__version__"]


def __getattr__(name: str):
    if name != "__version__":
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    try:
        return _metadata.version(DISTRIBUTION)
    except _metadata.PackageNotFoundError:
        return "0+unknown"


def __dir__():
    return sorted([*globals(), "__version__"])
