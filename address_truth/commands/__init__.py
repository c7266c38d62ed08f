"Command implementations behind the address-truth CLI."
