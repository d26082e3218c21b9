"""Core application components.

This module provides the foundational components for the storesync service:
- Key-value store access (DynamoDB) and object storage (S3) via boto3
- Application settings and configuration
- Logging configuration shared by every entry point
"""
