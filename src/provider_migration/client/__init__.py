"""Resource registry clients and the exception hierarchy."""
