"""
Stale-while-revalidate caching over multiple storage backends.
"""
