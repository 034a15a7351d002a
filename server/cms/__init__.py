"""
Content service for the nonprofit site.

Serves the public pages from the document store and backs the admin
editor: ordered collections, page content, featured-photo slots and the
photo gallery.
"""
