"""Text segmentation and chunk ingestion."""
