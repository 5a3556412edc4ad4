"""Browse a single S3 bucket with locally protected credentials."""
