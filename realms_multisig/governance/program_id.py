from realms_multisig.constants import GOVERNANCE_PROGRAM_ID

PROGRAM_ID = GOVERNANCE_PROGRAM_ID
