"""Collection definitions loaded from YAML."""
