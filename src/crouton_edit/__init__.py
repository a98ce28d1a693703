"""crouton-edit — back up, restore, encrypt, move and delete chroots."""

__version__ = "0.1.0"
