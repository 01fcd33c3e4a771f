# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.__main__",
#   "purpose": "Entry point for CLI invocation via python -m.",
#   "sections": []
# }
# === /NAVMAP ===

"""Entry point for CLI invocation via python -m."""

from ModelVault.RegistryDownload.cli import app

if __name__ == "__main__":
    app()
