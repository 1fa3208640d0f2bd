"""SocialProofPass — zkTLS social proof relay, mint coordination and registry model."""

__version__ = "1.0.0"
