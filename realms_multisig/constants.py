"""Program ids and protocol constants."""

from solders.pubkey import Pubkey

# SPL Governance v3 deployment used by Realms
GOVERNANCE_PROGRAM_ID = Pubkey.from_string("GovER5Lthms3bLBqWub97yVrMmEogzX7xNjdXpPPCVZw")

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSVAR_RENT_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

U64_MAX = 2**64 - 1

# u64::MAX disables the community vote entirely
DISABLED_VOTER_WEIGHT = U64_MAX

# 100% of the mint supply, expressed in the program's 10^10 fraction base
FULL_SUPPLY_FRACTION = 10_000_000_000

DEFAULT_VOTE_DURATION_SECONDS = 86_400
DEPOSIT_EXEMPT_PROPOSAL_COUNT = 254

MINT_ACCOUNT_SIZE = 82
PACKET_DATA_SIZE = 1232

PUBLIC_MAINNET_RPC = "https://api.mainnet-beta.solana.com"
