"""Find container images that fell behind their semantic-version constraint."""

__version__ = "0.2.0"
