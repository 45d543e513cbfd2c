"""Read side: movement queries, analytics and inventory reads."""
