"""OAuth connection flow: initiation, transit state and callback handling."""
