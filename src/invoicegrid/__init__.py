"""invoicegrid -- commercial invoice line-item editing engine."""

__version__ = "0.1.0"
