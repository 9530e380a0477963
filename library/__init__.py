"""
MongoDB persistence for the library service: document models and the
database manager used by the GraphQL resolvers.
"""
