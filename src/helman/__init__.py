"""Helman: power-flow tree and time-bucketed history engine."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("helman")
except Exception:
    __version__ = "dev"
