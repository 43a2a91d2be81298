"""Instance ledger: what the installer created and must later destroy."""
