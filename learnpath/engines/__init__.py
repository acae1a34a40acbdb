"""
Engines: concept catalog, path graph and validation, planning, calendar
publishing and workflow persistence.
"""
