"""NeuroShop - Behavioral Memory & Price Monitoring Backend"""

__version__ = "1.0.0"
