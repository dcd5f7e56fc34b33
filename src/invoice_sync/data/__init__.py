"""
Static defaults and demo data for the sync layer.

Modules:
- defaults: Default terms and conditions used by new template preferences
- demo_rows: Wire-format rows that seed DemoRemoteBackend
"""
