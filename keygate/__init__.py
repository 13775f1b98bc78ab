"""Device-bound access key issuing and redemption."""
