"""Network, VNF catalog, requests and placement solutions."""
