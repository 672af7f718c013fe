"""Tool server client, directory queries and embedded directives."""
