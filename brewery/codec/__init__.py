"""Binary and text codecs for ingredient records.

Import the submodules directly: ``base91`` for the text alphabet,
``records`` for the collection format and the loader registry.
"""
