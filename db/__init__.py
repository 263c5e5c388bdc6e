"""Durable key-value storage for the storefront service.

Everything the browser front end used to keep in local storage (catalog
snapshot, cart, saved and recently viewed ids, preferences) lives behind
`db.storage.KeyValueStorage`, backed by memory or a `databases` URL.
"""
