"""
asset_ingestion -- CSV asset import pipeline.

Parses CSV files, runs them through six fixed phases (extract, validate,
clean, transform, map, load), stages the results per import job, and
promotes approved rows into the asset store.  Cleaning behaviour is driven
by persisted, priority-ordered rules that take effect without a redeploy.

Architecture:
    asset_ingestion/ depends on asset_kernel/ (logging, errors, db, clock)
    and asset_config/ (settings).  The kernel reaches back in only to
    register tables in create_tables().
"""
