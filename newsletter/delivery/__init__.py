"""Newsletter delivery package.

``outbox`` writes an issue and its delivery tasks inside the publish
transaction; ``worker`` drains those tasks asynchronously.
"""
