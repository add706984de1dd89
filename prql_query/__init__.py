"""
prql-query

Query csv, json, parquet and avro files or database tables with PRQL or SQL,
executed by one of:
- DuckDB (embedded analytical database)
- DataFusion (in-process query engine)
- PostgreSQL / MySQL servers (remote connector)
"""

__version__ = "0.1.0"
