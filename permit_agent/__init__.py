"""Permit lookup agent: jurisdiction discovery, scraping and extraction jobs."""
