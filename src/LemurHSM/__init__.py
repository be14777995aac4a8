# === NAVMAP v1 ===
# {
#   "module": "LemurHSM",
#   "purpose": "Package initialization for the LemurHSM data movers",
#   "sections": []
# }
# === /NAVMAP ===

"""HSM data movers tiering POSIX files to object storage.

``LemurHSM.dmplugin`` holds the coordinator-facing mover contract shared by
every backend; ``LemurHSM.AzureCore`` is the Azure blob / hierarchical
namespace archive engine built on top of it.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
