"""Summary sheet parsing: reader, layout locator, row parser."""
