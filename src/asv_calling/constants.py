"""
Constants for ASV calling.

Contains filename conventions for paired FASTQ files, default filtering
and denoising thresholds, and the taxonomic ranks reported by the
taxonomy assignment step.
"""

# Paired FASTQ naming: <sample>_1.fastq.gz / <sample>_2.fastq.gz
FORWARD_SUFFIX = "_1.fastq.gz"
REVERSE_SUFFIX = "_2.fastq.gz"

# Filtered output naming
FILTERED_DIRNAME = "filtered"
FILTERED_FORWARD_SUFFIX = "_F_filt.fastq.gz"
FILTERED_REVERSE_SUFFIX = "_R_filt.fastq.gz"

# Quality filtering defaults
DEFAULT_TRUNC_LEN = (240, 160)   # forward, reverse
DEFAULT_MAX_N = 0
DEFAULT_MAX_EE = (2.0, 2.0)      # forward, reverse
DEFAULT_TRUNC_Q = 2
DEFAULT_RM_CONTROL = True
DEFAULT_MIN_REPORT_READS = 1000

# Control-sequence screen (k-mer word size and hits needed to flag a read)
CONTROL_WORD_SIZE = 16
CONTROL_MIN_MATCHES = 2

# Phred encoding
PHRED_OFFSET = 33
MAX_PHRED = 41

# Denoising defaults
DEFAULT_MAX_MISMATCH = 3
DEFAULT_OMEGA = 40.0            # -log10 abundance p-value threshold
DEFAULT_MIN_ABUNDANCE = 2
DEFAULT_MIN_OVERLAP = 12
DEFAULT_MAX_MERGE_MISMATCH = 0

# Chimera removal ("consensus" method)
CHIMERA_METHOD = "consensus"
DEFAULT_MIN_FOLD_PARENT = 1.5
DEFAULT_MIN_SAMPLE_FRACTION = 0.9
DEFAULT_IGNORE_N_NEGATIVES = 1

# Taxonomy assignment
TAXONOMY_RANKS = ("Kingdom", "Phylum", "Class", "Order", "Family", "Genus")
SPECIES_RANK = "Species"
TAXONOMY_WORD_SIZE = 8
DEFAULT_MIN_BOOT = 50
DEFAULT_N_BOOTSTRAP = 100

# Sequencing runs of the study and their sample-id tags
MIRA_RUNS = {
    "MIRA1": "M1",
    "MIRA2": "M2",
    "MIRA3": "M3",
}
