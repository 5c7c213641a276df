"""Services package for Legal Brief."""
