"""Classification of nu_tau candidate events and efficiency/purity cut scan."""

__version__ = "1.0.0"
