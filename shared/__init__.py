"""Models, constants and local storage shared by the client and the player."""
