"""
Database Management Scripts

This module contains the database administration commands:
- Clearing the database together with the search index
- Running SQL scripts and migrations
- Delegating to psql, pg_dump and pg_restore
"""
