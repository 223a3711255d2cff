"""Database access: connection pool and raw SQL queries"""
