"""VPC constructs."""
