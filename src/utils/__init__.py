"""
Utils package.

- Models are Pydantic models; persisted ones implement to_dynamodb_item()
  and from_dynamodb_item(data) to convert to and from stored items.
- Calendar dates are stored as ISO strings, timestamps as epoch milliseconds.
- Application-specific IDs are UUIDs, stored as strings.
"""
