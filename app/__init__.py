"""core-clinic-access: resolution d'identite et controle d'acces multi-domaines."""

__version__ = "0.1.0"
