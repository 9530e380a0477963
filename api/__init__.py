"""
GraphQL API for the library service.

This package provides:
- Queries over books and authors
- Mutations for adding books, editing authors and user accounts
- A bookAdded subscription fed by an in-process event bus
- Bearer token authentication
"""
