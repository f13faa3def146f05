from ._clonal_expansion import clonal_expansion
from ._diversity import (
    alpha_diversity,
    clonal_proportion,
    gini_coefficient,
    normalized_shannon_entropy,
    richness,
    shannon_entropy,
    true_diversity,
)
from ._mutation_network import SharedClonotype, SimilarityGraph, mutation_network, shared_repertoire
from ._repertoire_overlap import (
    clonotype_jsd,
    jensen_shannon_divergence,
    jsd_matrix,
    overlap,
    overlap_linkage,
    repertoire_overlap,
    top_cross,
)
from ._segment_usage import (
    GeneDimension,
    PairedGenes,
    SingleGene,
    segment_usage,
    segment_usage_entropy,
    segment_usage_matrix,
    segment_usage_pca,
)
from ._spectratype import spectratype
