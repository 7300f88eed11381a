"""
customer-etl: extract customer records, score and transform them, and load
them into a relational sink in batched, retryable transactions.
"""

__version__ = "0.1.0"
