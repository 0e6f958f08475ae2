"""Fragment records: one markdown file per ID, grouped into named sets.

Layout:
    <workspace>/<cms_folder>/
    ├── state.json                     # Sequential ID cursor
    ├── <id>.md                        # Legacy flat fragments (read-only fallback)
    └── <set>/
        ├── <id>.md                    # Header block + free-text body
        └── SUMMARY.md                 # Optional export, see codemeta.summary
"""
