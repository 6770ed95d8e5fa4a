"""td-monitor - An interactive terminal dashboard for the td issue tracker."""

try:
    from ._version import __version__
except ImportError:
    try:
        from importlib.metadata import version

        __version__ = version("td-monitor")
    except Exception:
        __version__ = "0.0.0+unknown"
