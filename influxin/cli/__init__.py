"""influxin command-line interface."""
