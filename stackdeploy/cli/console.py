from rich.console import Console

# status output and errors go to stderr, stdout only carries what the provisioning API returned
console = Console(stderr=True)
