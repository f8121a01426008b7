# API Module - HTTP surface of PixelVault
#
# FastAPI routers for auth, users and entries, mounted by api.main.
