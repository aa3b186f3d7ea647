"""Multisig actor support for fil-quick-wallet."""

from filwallet.features.multisig.service import (
    MultisigCoordinator,
    MultisigInfo,
    ProposalHashData,
    ProposalRequest,
)
from filwallet.features.multisig.recipes import (
    Action,
    AddSigner,
    ChangeBeneficiary,
    ChangeOwner,
    ChangeThreshold,
    ChangeWorker,
    ConfirmChangeBeneficiary,
    ConfirmChangeWorker,
    CreateMiner,
    InnerCall,
    LockBalance,
    Operation,
    OperationKind,
    RecipeRouter,
    RemoveSigner,
    SetControlAddresses,
    SwapSigner,
    Transfer,
    WithdrawBalance,
)

__all__ = [
    "MultisigCoordinator",
    "MultisigInfo",
    "ProposalHashData",
    "ProposalRequest",
    "Action",
    "OperationKind",
    "Operation",
    "InnerCall",
    "RecipeRouter",
    "Transfer",
    "WithdrawBalance",
    "ChangeOwner",
    "ChangeWorker",
    "ConfirmChangeWorker",
    "SetControlAddresses",
    "ChangeBeneficiary",
    "ConfirmChangeBeneficiary",
    "CreateMiner",
    "AddSigner",
    "RemoveSigner",
    "SwapSigner",
    "ChangeThreshold",
    "LockBalance",
]
