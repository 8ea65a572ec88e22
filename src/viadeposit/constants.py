"""
Bitcoin script, PSBT and VIA bridge deployment constants.
"""

from __future__ import annotations

# Script opcodes used when building deposit outputs
OP_0 = 0x00
OP_1 = 0x51
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC

# Largest payload that can be pushed with a single direct-push opcode.
# Standard relay policy rejects OP_RETURN outputs using anything else here.
MAX_DIRECT_PUSH = 75

# Transaction defaults (BIP-68 disabled, no locktime)
TX_VERSION = 2
TX_LOCKTIME = 0
SEQUENCE_FINAL = 0xFFFFFFFF
MAX_MONEY = 21_000_000 * 100_000_000

SIGHASH_ALL = 0x01

# BIP-174 (PSBT version 0)
PSBT_MAGIC = b"psbt\xff"
PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_GLOBAL_VERSION = 0xFB
PSBT_IN_NON_WITNESS_UTXO = 0x00
PSBT_IN_WITNESS_UTXO = 0x01
PSBT_IN_PARTIAL_SIG = 0x02
PSBT_IN_SIGHASH_TYPE = 0x03
PSBT_IN_FINAL_SCRIPTSIG = 0x07
PSBT_IN_FINAL_SCRIPTWITNESS = 0x08

# VIA bridge testnet deployment
VIA_BRIDGE_ADDRESS_TESTNET = "tb1pgvfdm6mfam4kqtnsjudjfa9c4q83mc0a6w5qyz07ajqvyt4f25vsaywx9w"
L2_RECEIVER_ADDRESS = "36615Cf349d7F6344891B1e7CA7C72883F5dc049"
DEFAULT_DEPOSIT_AMOUNT = 1500  # satoshis
DEFAULT_DEPOSIT_FEE = 300  # satoshis
DEFAULT_SIGNING_MESSAGE = "Sign VIA deposit transaction"

# Esplora REST endpoints and block explorers per network
ESPLORA_API_URLS: dict[str, str] = {
    "mainnet": "https://blockstream.info/api",
    "testnet": "https://blockstream.info/testnet/api",
    "signet": "https://mempool.space/signet/api",
    "regtest": "http://127.0.0.1:3002",
}

EXPLORER_TX_URLS: dict[str, str] = {
    "mainnet": "https://mempool.space/tx/",
    "testnet": "https://mempool.space/testnet/tx/",
    "signet": "https://mempool.space/signet/tx/",
    "regtest": "",
}
