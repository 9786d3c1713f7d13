"""HTML templates for the authorization result pages."""
