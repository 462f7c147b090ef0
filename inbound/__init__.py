# Inbound scanning service package
