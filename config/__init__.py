"""Configuration models and loader for the EKS cluster stack."""
