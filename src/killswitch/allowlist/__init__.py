"""Allow-list resolution: VPN server scopes to persisted IPv4 address sets."""
