"""Payment domain: signature schemes and payment exceptions."""
