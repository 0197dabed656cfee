"""Dashboard read views: live feed, orders table, CSV export and sales chart."""
