"""Command-line interface (``storecast``)."""
