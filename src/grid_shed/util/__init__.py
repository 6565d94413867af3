"""
The `util` package collects small helpers shared by the rest of the service.

- [`logging.py`](src/grid_shed/util/logging.py): the `LoggingUtil` factory that
  hands out consistently formatted console loggers whose level is driven by
  the `LOGLEVEL` environment variable.
"""
