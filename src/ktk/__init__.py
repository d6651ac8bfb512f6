"""ktk: one terminal tab and one private kubeconfig per namespace."""

__version__ = "0.9.0"
