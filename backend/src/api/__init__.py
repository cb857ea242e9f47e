# API routes module
# Template and template-style catalog endpoints. Routers are imported by
# main.py directly so that importing the models package stays lightweight.
