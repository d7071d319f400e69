"""Document metadata store providers.

SQLiteMetadataStore keeps one lifecycle row per document in data/metadata.db.
"""
