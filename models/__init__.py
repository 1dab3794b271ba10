"""
Model loader package for the local object localizer.

Exposes a singleton accessor for Grounding DINO (`get_gdino`). Heavy
imports (torch, groundingdino) happen on first use only.
"""
