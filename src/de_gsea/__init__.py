from de_gsea.__about__ import __version__
